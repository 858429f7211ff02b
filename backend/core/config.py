# backend/core/config.py
import os
from typing import List
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - APP_TITLE the FastAPI application title
        - HOST / PORT where uvicorn binds when main.py is run directly
        - MAX_NAME_LENGTH / MAX_AVATAR_LENGTH limits on login profiles
        - MAX_MESSAGE_LENGTH the longest accepted message body
        - MAX_FRAME_BYTES the largest inbound WebSocket frame that is decoded
        - OUTBOUND_QUEUE_SIZE pending events per connection before the peer is dropped
        - CORS_ORIGINS comma separated list of allowed origins ("*" for any)
    """

    # Load environment variables from the .env file
    load_dotenv()

    APP_TITLE: str = os.getenv("APP_TITLE", "Ephemeral Chat")

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    MAX_NAME_LENGTH: int = int(os.getenv("MAX_NAME_LENGTH", "50"))
    MAX_AVATAR_LENGTH: int = int(os.getenv("MAX_AVATAR_LENGTH", "16"))
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "4000"))
    MAX_FRAME_BYTES: int = int(os.getenv("MAX_FRAME_BYTES", "65536"))

    OUTBOUND_QUEUE_SIZE: int = int(os.getenv("OUTBOUND_QUEUE_SIZE", "256"))

    CORS_ORIGINS: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

settings = Settings()
