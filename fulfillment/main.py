# fulfillment/main.py
import uvicorn

from fulfillment.api import create_app
from fulfillment.data.database import Base, engine
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
Base.metadata.create_all(bind=engine)

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
