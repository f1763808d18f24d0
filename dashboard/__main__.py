#!/usr/bin/env python3
"""Main entry point for the LuckyPay Dashboard"""

import uvicorn

from luckypay.config import get_config
from luckypay.logging_config import setup_logging
from dashboard.app import create_app


def main():
    """Start the dashboard server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    app = create_app()
    
    print("💳 LuckyPay Dashboard")
    print(f"💻 Starting on http://{config.api_host}:{config.api_port}")
    print(f"🔌 API docs: http://{config.api_host}:{config.api_port}/docs")
    print("🛑 Press Ctrl+C to stop")
    
    uvicorn.run(
        app,
        host=config.api_host,
        port=config.api_port,
        reload=False,
        access_log=False
    )


if __name__ == "__main__":
    main()
