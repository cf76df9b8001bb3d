"""
Run the get_flag flow against the configured network

Usage: python -m iota_offchain [--two-stage]

Transactions are signed over the canonical CBOR encoding, which is not the
node's BCS wire format. Against a live node the submission is refused until a
ledger-specific encoder is passed to ExecutionDriver(encode=...).
"""

import argparse
import logging
import sys

from .chain_context import IotaChainContext
from .config import get_settings
from .driver import ExecutionDriver
from .exceptions import ExecutionRejectedError, IntentError
from .resolver import ReferenceResolver
from .tokens import FlagContract, TokenOperations
from .wallet import KeystoreSigner


logger = logging.getLogger("iota_offchain")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Mint, merge, split and redeem MINTCOIN for a flag")
    parser.add_argument("--two-stage", action="store_true", help="Mint in one transaction, redeem in a second")
    args = parser.parse_args(argv)

    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not settings.has_contract:
        logger.error("IOTA_PACKAGE_ID, IOTA_TREASURY_CAP_ID and IOTA_SHARED_COUNTER_ID must be set")
        return 2

    chain_context = IotaChainContext.from_settings(settings)
    logger.info(f"Connecting to {chain_context.rpc_url}")

    try:
        signer = KeystoreSigner.from_file(settings.keystore_path)
        addresses = signer.addresses()
        if len(addresses) <= settings.sender_index:
            logger.error(f"No address at index {settings.sender_index} in {settings.keystore_path}")
            return 2
        sender = addresses[settings.sender_index]
        logger.info(f"Using address: {sender}")

        client = chain_context.get_client()
        resolver = ReferenceResolver(client)
        driver = ExecutionDriver(
            client,
            signer,
            sender,
            resolver=resolver,
            gas_budget=settings.gas_budget,
            confirmation_timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
            max_submit_attempts=settings.max_submit_attempts,
        )
        operations = TokenOperations(FlagContract.from_settings(settings, resolver), sender, driver)
        outcome = operations.get_flag(
            amount=settings.split_amount, mint_count=settings.mint_count, two_stage=args.two_stage
        )
    except ExecutionRejectedError as e:
        logger.error(f"Transaction rejected: {e}")
        logger.error(f"Effects: {e.effects}")
        return 1
    except IntentError as e:
        logger.error(f"Transaction flow failed: {e}")
        if e.completed:
            logger.error(f"Already final on-chain: {list(e.completed)}")
        return 1
    finally:
        chain_context.close()

    for execution in outcome.executions:
        logger.info(f"Unit {execution.index} digest: {execution.digest}")
        logger.info(f"Explorer: {chain_context.get_explorer_url(execution.digest)}")
        logger.info(f"Effects: {execution.result.effects.get('effects')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
