import os

from mangum import Mangum

from app_factory import AppConfig, create_app

config = AppConfig(
    title="MoneyMind API",
    description="Expense tracking and analytics for Malaysian spenders",
    version="1.0.0",
    environment=os.getenv("STAGE", "dev"),
    root_message="MoneyMind API",
)
app = create_app(config)

handler = Mangum(app, lifespan="off")
