# storefront/services/review_service.py
from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.data.models.review import ReviewModel
from storefront.domain.requests import CreateReviewRequest, validate_create_review
from storefront.repos.review_repo import ReviewRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ReviewService:
    """
    Review ledger, tylko dopisywanie.
    Czy user kupil produkt sprawdza wywolujacy (router), nie ten serwis.
    """

    def __init__(self, db: Session):
        self.repo = ReviewRepo(db)

    def create_review(self, user_id: str, product_id: str, rating: int, comment: Optional[str] = None) -> ReviewModel:
        req = validate_create_review(
            CreateReviewRequest(user_id=user_id, product_id=product_id, rating=rating, comment=comment)
        )
        review = self.repo.create_review(
            ReviewModel(
                user_id=req.user_id,
                product_id=req.product_id,
                rating=req.rating,
                comment=req.comment,
            )
        )
        logger.info(f"Review {review.id} ({review.rating}/5) added for product {product_id} by user {user_id}")
        return review

    def list_for_product(self, product_id: str) -> List[ReviewModel]:
        return self.repo.list_by_product(product_id)

    def list_for_user(self, user_id: str) -> List[ReviewModel]:
        return self.repo.list_by_user(user_id)
