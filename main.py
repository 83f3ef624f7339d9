"""Entrypoint: analyse one URL from the command line, or serve URLs from Redis."""

import asyncio
import json
import logging
import sys

from trustscan.commons import RedisClient
from trustscan.config import Config
from trustscan.processor import Processor


async def main(argv: list[str]) -> None:
    """Run a one-shot analysis when a URL is given, otherwise start the worker."""
    config: Config = Config.load()
    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    async with Processor(config) as processor:
        if argv:
            for url in argv:
                print(json.dumps(await processor.handle(url), indent=2))
            return

        redis = RedisClient(host=config.redis.host, port=config.redis.port, db=config.redis.db)
        try:
            await processor.start(redis)
        finally:
            await redis.close()


if __name__ == "__main__":
    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutdown requested (Ctrl-C).")
