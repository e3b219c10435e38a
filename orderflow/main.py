# orderflow/main.py
import uvicorn

from orderflow.api import create_app
from orderflow.data.database import Base, engine
from orderflow.utils.logging import get_logger

# import modeli przed create_all, zeby trafily do Base.metadata
import orderflow.data.models  # noqa: F401

logger = get_logger(__name__)

logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")

try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
except Exception as e:
    logger.error(f"Failed to create tables: {e}")
    raise


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
