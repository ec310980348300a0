import pytest

from storefront.domain.errors import InvalidInput
from storefront.repos.order_repo import OrderRepo
from storefront.services.review_service import ReviewService


@pytest.fixture
def reviews(db):
    return ReviewService(db)


def test_review_is_appended_and_listed(reviews):
    first = reviews.create_review("user-1", "p1", 5, "  great  ")
    second = reviews.create_review("user-2", "p1", 3)
    reviews.create_review("user-1", "p2", 4)

    assert first.comment == "great"
    assert second.comment is None
    assert {r.id for r in reviews.list_for_product("p1")} == {first.id, second.id}
    assert {r.product_id for r in reviews.list_for_user("user-1")} == {"p1", "p2"}


@pytest.mark.parametrize("rating", [0, 6, -1, 4.5, "5", True, None])
def test_rating_must_be_integer_between_1_and_5(reviews, rating):
    with pytest.raises(InvalidInput) as exc:
        reviews.create_review("user-1", "p1", rating)
    assert "rating" in exc.value.errors
    assert reviews.list_for_product("p1") == []


def test_missing_fields(reviews):
    with pytest.raises(InvalidInput) as exc:
        reviews.create_review("", "", 3)
    assert set(exc.value.errors) == {"user_id", "product_id"}


def test_only_completed_order_lines_count_as_purchases(service, make_order, owner, db):
    paid = make_order()
    service.initiate_payment(paid.id, "cash_on_delivery", owner)
    unpaid = make_order(items=None)
    service.cancel_order(unpaid.id, owner)

    repo = OrderRepo(db)
    assert repo.has_completed_order_line(owner.user_id, "p1")
    assert not repo.has_completed_order_line(owner.user_id, "p3")
    assert not repo.has_completed_order_line("user-2", "p1")
