# storefront/api/routers/reviews.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_actor, get_db, get_review_service
from storefront.api.errors import http_errors
from storefront.domain.requests import Actor
from storefront.domain.schemas import ReviewCreate, ReviewOut
from storefront.repos.order_repo import OrderRepo
from storefront.services.review_service import ReviewService

router = APIRouter(tags=["reviews"])


@router.post("/reviews", response_model=ReviewOut, status_code=201)
def create_review(
    payload: ReviewCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    svc: ReviewService = Depends(get_review_service),
):
    #recenzja tylko dla produktu z zakonczonego zamowienia
    if not OrderRepo(db).has_completed_order_line(actor.user_id, payload.product_id):
        raise HTTPException(status_code=403, detail="Only buyers of a completed order can review this product")

    with http_errors():
        return svc.create_review(actor.user_id, payload.product_id, payload.rating, payload.comment)


@router.get("/products/{product_id}/reviews", response_model=List[ReviewOut])
def list_product_reviews(product_id: str, svc: ReviewService = Depends(get_review_service)):
    return svc.list_for_product(product_id)


@router.get("/reviews/me", response_model=List[ReviewOut])
def list_my_reviews(
    actor: Actor = Depends(get_current_actor),
    svc: ReviewService = Depends(get_review_service),
):
    return svc.list_for_user(actor.user_id)
