#!/usr/bin/env python3
"""
Run script for the evaluation API
"""
import uvicorn

from drill_eval.config.settings import settings
from drill_eval.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
