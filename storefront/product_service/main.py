# storefront/product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Service (dev mock)")


#ceny jako string, bez floatow
PRODUCTS = {
    "iphone-15": {"id": "iphone-15", "name": "iPhone 15 128GB", "price": "22990000"},
    "galaxy-s24": {"id": "galaxy-s24", "name": "Samsung Galaxy S24", "price": "19990000"},
    "pixel-8": {"id": "pixel-8", "name": "Google Pixel 8", "price": "15490000"},
    "airpods-pro": {"id": "airpods-pro", "name": "AirPods Pro 2", "price": "5990000"},
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
