#!/usr/bin/env python3
"""
Omnichain token list worker.

Builds `token-list.json` and `inactive-token-list.json` from the OFT metadata
snapshot, on-chain peer discovery and the public token lists found in the
output directory. Each stage reads the previous stage's JSON snapshot, so a
single stage can be re-run on its own.

Stages (in order):
  adapters : resolve OFT adapters from ofts.json          -> usableTokens.json
  peers    : discover cross-chain peers on-chain          -> usableTokens.json
  fees     : quote bridging fees and check adapters       -> usableTokensEnhanced.json
  merge    : reconcile with public lists, split inactive  -> token-list.json, inactive-token-list.json
  dedupe   : collapse duplicate entries across the lists  -> token-list.json, inactive-token-list.json
  verify   : report peer symmetry and checksum issues     -> verification-report.csv
"""

import argparse
import logging
import sys

from token_list.config import Config, setup_logging
from token_list.core import STAGES, MissingInputError, TokenListWorker
from token_list.evm.config import EvmConfig

setup_logging()
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Omnichain Token List Worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Stages: adapters, peers, fees, merge, dedupe, verify (default: all, in order)

Examples:
  python token_list_worker.py
  python token_list_worker.py --stage peers --chains ethereum,arbitrum,base
  python token_list_worker.py --stage merge,dedupe --output-dir ./lists
  python token_list_worker.py --stage verify --log-level DEBUG
        """,
    )
    parser.add_argument("--stage", type=str, default="all", help="Comma-separated stages to run (default: all)")
    parser.add_argument("--output-dir", type=str, default=Config.OUTPUT_DIR, help="Directory holding stage snapshots")
    parser.add_argument("--chains", type=str, default=None, help="Comma-separated chain keys (default: all supported)")
    parser.add_argument("--max-rounds", type=int, default=EvmConfig.MAX_DISCOVERY_ROUNDS)
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    if args.log_level:
        logging.getLogger().setLevel(args.log_level.upper())

    if args.stage == "all":
        stages = list(STAGES)
    else:
        stages = [s.strip() for s in args.stage.split(",") if s.strip()]
    invalid = [s for s in stages if s not in STAGES]
    if invalid or not stages:
        logger.error(f"Invalid stage(s): {', '.join(invalid) or '(none)'}")
        logger.error(f"Valid stages: {', '.join(STAGES)}")
        sys.exit(1)

    chain_cfgs = EvmConfig.default_chain_configs()
    if args.chains:
        wanted = [c.strip() for c in args.chains.split(",") if c.strip()]
        unknown = [c for c in wanted if c not in chain_cfgs]
        if unknown:
            logger.error(f"Unknown chain(s): {', '.join(unknown)}")
            logger.error(f"Supported chains: {', '.join(chain_cfgs)}")
            sys.exit(1)
        chain_cfgs = {c: chain_cfgs[c] for c in wanted}

    logger.info("=" * 80)
    logger.info(f"TOKEN LIST WORKER: stages={','.join(stages)}")
    logger.info(f"Chains: {', '.join(chain_cfgs)}")
    logger.info("=" * 80)

    worker = TokenListWorker(output_dir=args.output_dir, chain_configs=chain_cfgs, max_rounds=args.max_rounds)
    try:
        worker.run(stages)
    except MissingInputError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("Done.")


if __name__ == "__main__":
    main()
