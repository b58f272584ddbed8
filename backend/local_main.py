from app_factory import AppConfig, create_app


config = AppConfig(
    title="MoneyMind API (Local)",
    description="Expense tracking and analytics for Malaysian spenders - Local Development",
    version="1.0.0",
    environment="local",
    root_message="MoneyMind API (Local Development)",
    log_context="MoneyMind API (Local Development)",
)
app = create_app(config)
