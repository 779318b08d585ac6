import os
import logging
import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

if os.environ.get("DEBUG", "0") == "1":
    logging.getLogger().setLevel(logging.DEBUG)

from api import create_app
from config import get_config

config = get_config()
app = create_app()


def run() -> None:
    logger.info(f"Starting Echo Diarizer on {config.host}:{config.port}")
    logger.info(f"Segmentation model: {config.segment_model_path}")
    logger.info(f"Embedding model: {config.embedding_model_path}")
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
