"""
本地启动入口：python -m messvote
"""

import uvicorn

from .config.settings import settings

if __name__ == "__main__":
    uvicorn.run("messvote.app:app", host="127.0.0.1", port=8000, log_level=settings.log_level.lower())
