#!/usr/bin/env python3
"""Pick, download and load the best model for this device.

Demonstrates:
- Subscribing to lifecycle and resource state
- Running initialize() on the orchestrator's worker thread
- Querying recommendations and upgrade paths afterwards

Usage:
    python examples/auto_load.py [--no-auto-load]
"""
from __future__ import annotations

import sys

from adapt.config import load_config
from adapt.factory import build_orchestrator
from adapt.probe import describe
from adapt.state import Downloading, Error, LifecycleState, Ready


def on_state(state: LifecycleState) -> None:
    """Print each lifecycle state to stdout."""
    if isinstance(state, Downloading):
        print(f"  [Downloading] {state.model_name} {state.percent}%")
    else:
        print(f"  [{type(state).__name__}] {state}")


def main() -> None:
    auto_load = "--no-auto-load" not in sys.argv[1:]
    orchestrator = build_orchestrator(load_config())
    orchestrator.state.subscribe(on_state)
    orchestrator.resources.subscribe(
        lambda snapshot: snapshot is not None and print(describe(snapshot))
    )

    try:
        final = orchestrator.submit(orchestrator.initialize, auto_load=auto_load).result()
    finally:
        orchestrator.shutdown()

    print("-" * 50)
    print(orchestrator.get_model_recommendation())
    if isinstance(final, Ready):
        ok, better = orchestrator.can_upgrade_model()
        if ok:
            print(f"Upgrade available: {orchestrator.catalog.display_name_for(better)}")
    elif isinstance(final, Error):
        sys.exit(1)


if __name__ == "__main__":
    main()
