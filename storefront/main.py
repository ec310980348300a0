# storefront/main.py
import uvicorn

from storefront.api import create_app

app = create_app()


def run():
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
