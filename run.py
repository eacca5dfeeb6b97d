import uvicorn

from livestream.core.config import settings

if __name__ == "__main__":
    # 스트림은 메인 앱에 등록되므로 같은 포트에서 API와 스트림을 함께 제공합니다.
    uvicorn.run("livestream.main:app", host=settings.SERVER_HOST, port=settings.SERVER_PORT)
