import logging
import sys
from pathlib import Path
p = Path(__file__).resolve().parent
sys.path.insert(0, str(p))

from smart_parking.config import settings
from smart_parking.server import app
import uvicorn

if __name__ == '__main__':
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL)
