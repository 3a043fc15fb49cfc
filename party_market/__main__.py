import uvicorn

from party_market.config import settings


def main() -> None:
    uvicorn.run("party_market.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
