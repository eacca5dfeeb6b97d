import sys
from loguru import logger

from livestream.core.config import settings

# --- 로거 설정 ---
# 기존 로거를 모두 제거하고 새로운 설정을 적용합니다.
logger.remove()

logger.add(
    sys.stderr,
    level=settings.LOG_LEVEL.upper(),
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
           "<level>{level: <8}</level> | "
           "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
           "<level>{message}</level>",
    colorize=True,
)

# 다른 모듈에서 'from livestream.core.logging import logger'로 가져가서 사용합니다.
__all__ = ["logger"]
