import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from storefront.presentation.api import router
from storefront.database import create_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    await create_tables()
    logger.info("Таблицы созданы")

    yield

    logger.info("Приложение останавливается...")

app = FastAPI(
    title="Storefront Checkout Service",
    description="Оформление заказов и сверка платежей PayFast",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Storefront Checkout Service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
