"""
Terra Chat Backend Runner
Run with: python run.py
"""

import uvicorn
from terra_chat.config import settings


if __name__ == "__main__":
    print(f"""
    Terra Chat - marketplace buyer/seller conversations

    Starting server at http://{settings.HOST}:{settings.PORT}

    API Documentation: http://localhost:{settings.PORT}/docs
    """)

    uvicorn.run(
        "terra_chat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
