# scripts/refresh_oauth_tokens.py
"""
Refresca los tokens de MercadoPago que vencen pronto.

Pensado para el cron externo cuando se prefiere un comando en vez del
endpoint interno:

    python -m scripts.refresh_oauth_tokens --hours 24
"""
import sys, asyncio
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import argparse
import logging
from datetime import timedelta

from app.core.config import settings
from app.core.dependencies import get_mercadopago_client
from app.core.logging import setup_logging
from app.db.session import AsyncSessionLocal
from app.modules.transactions.oauth import refresh_expiring_tokens

logger = logging.getLogger("scripts.refresh_oauth_tokens")


async def main(hours: int) -> int:
    mp = get_mercadopago_client()
    async with AsyncSessionLocal() as db:
        refreshed, failed = await refresh_expiring_tokens(db, mp, timedelta(hours=hours))
    logger.info("tokens refrescados=%s fallidos=%s", len(refreshed), len(failed))
    return 1 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Refresca tokens OAuth de MercadoPago por vencer")
    parser.add_argument("--hours", type=int, default=24, help="ventana de vencimiento en horas")
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL, "json" if settings.LOG_FORMAT == "json" else "plain")
    sys.exit(asyncio.run(main(args.hours)))
