#!/usr/bin/env python3
"""Run the lending-vault invariant harness from the command line.

Defaults come from ``VAULT_FUZZ_*`` environment variables; flags override
them. A vault YAML config (``--config``) sets the vault's name, symbol,
bootstrap deposit and deposit cap. Prints a JSON report and exits non-zero
when any property is violated.

Replay a failure with the seed from the report:

    python tools/vault_fuzz.py --seed 1234 --steps 500
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.core.config import ConfigError, harness_config_from_env, load_vault_config
from src.core.types import StrategyKind
from src.harness.driver import InvariantHarness


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lending vault invariant harness")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: $VAULT_FUZZ_SEED or 0)")
    parser.add_argument("--steps", type=int, default=None, help="Actions per run")
    parser.add_argument("--holders", type=int, default=None, help="Number of tracked holders")
    parser.add_argument("--max-amount", type=int, default=None, help="Upper bound for generated amounts")
    parser.add_argument("--strategy", choices=[k.value for k in StrategyKind], default=None)
    parser.add_argument("--runs", type=int, default=1, help="Consecutive seeds to run, starting at --seed")
    parser.add_argument("--config", type=Path, default=None, help="Vault YAML config")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    config = harness_config_from_env()
    overrides = {
        "seed": args.seed,
        "steps": args.steps,
        "holders": args.holders,
        "max_amount": args.max_amount,
        "strategy": StrategyKind(args.strategy) if args.strategy else None,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if config.steps < 1 or config.holders < 1 or config.max_amount < 1 or args.runs < 1:
        print("error: counts must be positive", file=sys.stderr)
        return 2

    vault_config = None
    if args.config is not None:
        try:
            vault_config = load_vault_config(args.config)
        except (ConfigError, OSError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        if args.strategy is None:
            config = replace(config, strategy=vault_config.strategy)

    reports = []
    for offset in range(args.runs):
        run_config = replace(config, seed=config.seed + offset)
        reports.append(InvariantHarness(run_config, vault_config=vault_config).run())

    print(json.dumps({"runs": [r.to_dict() for r in reports]}, indent=2, sort_keys=True))
    return 0 if all(r.ok for r in reports) else 1


if __name__ == "__main__":
    raise SystemExit(main())
