from argparse import ArgumentParser
import asyncio
import logging
import os
import sys

from .config import load_config
from .eligibility import EligibilityRules, evaluate_eligibility
from .errors import ConfigError, ExhaustedError, RPCError
from .jsonutil import dumps
from .logging_utils import setup_stdout_logging
from .scanner import WalletScanner

logger = logging.getLogger(__name__)

EXIT_ELIGIBLE = 0
EXIT_NOT_ELIGIBLE = 1
EXIT_PROVIDER_FAILURE = 2
# argparse usage errors also exit with 2, so configuration gets its own code.
EXIT_CONFIG_ERROR = 3


async def _run(wallet: str, config_path: str | None, timeout: float | None) -> int:
    config = load_config(config_path)
    rules = EligibilityRules.from_config(config)
    async with WalletScanner(config) as scanner:
        result = await scanner.scan(wallet, timeout=timeout)
    decision = evaluate_eligibility(result, rules)
    print(dumps({"scan": result.to_dict(), "eligibility": decision.to_dict()}, indent=2))
    return EXIT_ELIGIBLE if decision.eligible else EXIT_NOT_ELIGIBLE


def main(argv: list[str] | None = None) -> int:
    parser = ArgumentParser(description="Check a wallet's reward eligibility on-chain")
    parser.add_argument("wallet", help="Wallet public key to scan")
    parser.add_argument("--config", help="TOML configuration file (default: $SOLREWARD_CONFIG)")
    parser.add_argument("--timeout", type=float, help="Deadline for the whole scan in seconds")
    parser.add_argument("--log-level", default=None, help="Logging level (default: $LOG_LEVEL)")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON logs")
    args = parser.parse_args(argv)

    # Results go to stdout as JSON, so only warnings are logged by default.
    setup_stdout_logging(
        level=args.log_level or os.getenv("LOG_LEVEL") or "WARNING",
        json_logs=args.json_logs,
    )

    try:
        return asyncio.run(_run(args.wallet, args.config, args.timeout))
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR
    except ExhaustedError as exc:
        logger.error("All RPC endpoints failed: %s", exc)
        return EXIT_PROVIDER_FAILURE
    except RPCError as exc:
        logger.error("RPC provider rejected the scan: %s", exc)
        return EXIT_PROVIDER_FAILURE
    except asyncio.TimeoutError:
        logger.error("Scan of %s timed out after %ss", args.wallet, args.timeout)
        return EXIT_PROVIDER_FAILURE


if __name__ == "__main__":
    sys.exit(main())
