"""
Entry point for the DeFi arbitrage engine.

Usage:
    python -m defi_arbitrage
    defi-arbitrage  # if installed via pip
"""

import sys


# Try to use uvloop for better performance
try:
    import uvloop  # noqa: F401

    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    from pydantic import ValidationError

    from defi_arbitrage import __version__
    from defi_arbitrage.config.settings import get_settings
    from defi_arbitrage.dashboard.server import main as serve
    from defi_arbitrage.telemetry.logger import setup_logging

    # Print banner
    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║     DEFI ARBITRAGE ENGINE v{__version__:<28}      ║
║                                                               ║
║     Scan -> Assess -> Approve -> Execute                      ║
╚═══════════════════════════════════════════════════════════════╝
    """
    )

    # Load settings
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Configuration error: {e}")
        print("\nCheck your .env file, for example:")
        print("  PRICE_SOURCE=mock")
        print("  WALLET_PRIVATE_KEY=0x...   # optional, enables real executions")
        return 1

    use_uvloop = settings.use_uvloop and UVLOOP_AVAILABLE
    settings = settings.model_copy(update={"use_uvloop": use_uvloop})

    # Print configuration summary
    print("Configuration:")
    print(f"  Price source:   {settings.price_source}")
    print(f"  Execution:      {'REAL (signed transfers)' if settings.execution_enabled else 'SIMULATED'}")
    print(f"  Approval:       {'manual' if settings.require_approval else 'autonomous'}")
    print(f"  Scan interval:  {settings.scan_interval}s")
    print(f"  Min profit:     {settings.min_profit_usd:.2f}%")
    print(f"  Max slippage:   {settings.max_slippage_pct:.2f}%")
    print(f"  Trade size:     ${settings.trade_amount_usd:,.2f}")
    print(f"  uvloop:         {'Enabled' if use_uvloop else 'Disabled'}")
    print()

    if settings.execution_enabled:
        print("WARNING: a wallet key is configured.")
        print("    Approved opportunities will sign and send real transactions.")
        print()

    async_logger = setup_logging(level=settings.log_level, log_file=settings.log_file)

    try:
        serve(settings)
        return 0

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0

    except Exception as e:
        print(f"\nFatal error: {e}")
        import traceback

        traceback.print_exc()
        return 1

    finally:
        async_logger.stop()


if __name__ == "__main__":
    sys.exit(main())
