# test/test_rating_service.py - Ratings and the summary they keep on the property

import asyncio

import pytest

from pgstay.core.security import Actor, Role
from pgstay.models.property import ReviewDecision
from pgstay.models.rating import RatingCreate
from pgstay.services.rating_service import summarize
from pgstay.utils.exceptions import AuthorizationError, NotFoundError, ValidationError


def guest(n: int) -> Actor:
    return Actor(user_id=f"user-{n}", role=Role.USER)


class TestSummary:
    def test_empty(self):
        assert summarize([]) == {
            "averageRating": 0.0,
            "totalRatings": 0,
            "ratingDistribution": {"1": 0, "2": 0, "3": 0, "4": 0, "5": 0},
        }

    def test_average_rounds_half_up(self):
        stats = summarize([5, 4, 4, 4])
        assert stats["averageRating"] == 4.3
        assert stats["ratingDistribution"]["4"] == 3


class TestRatings:
    @pytest.mark.asyncio
    async def test_rating_updates_property_summary(self, rating_service, property_service, sample_property):
        await rating_service.rate_property("PROP1001", guest(1), RatingCreate(rating=5, review="  Great food "))
        rating, created = await rating_service.rate_property("PROP1001", guest(2), RatingCreate(rating=2))

        assert created
        assert rating.landlord_id == sample_property.landlord_id
        prop = await property_service.load("PROP1001")
        assert prop.average_rating == 3.5
        assert prop.rating_count == 2

    @pytest.mark.asyncio
    async def test_rating_again_replaces_the_first(self, rating_service, property_service, sample_property):
        first, _ = await rating_service.rate_property("PROP1001", guest(1), RatingCreate(rating=5, review="Great"))
        second, created = await rating_service.rate_property("PROP1001", guest(1), RatingCreate(rating=3))

        assert not created
        assert second.id == first.id
        assert second.review == "Great"
        stats = await rating_service.rating_stats("PROP1001")
        assert stats["totalRatings"] == 1
        assert stats["averageRating"] == 3.0
        assert (await property_service.load("PROP1001")).average_rating == 3.0

    @pytest.mark.asyncio
    async def test_landlord_cannot_rate_own_property(self, rating_service, landlord, sample_property):
        with pytest.raises(AuthorizationError):
            await rating_service.rate_property("PROP1001", landlord, RatingCreate(rating=5))

    @pytest.mark.asyncio
    async def test_rejected_property_cannot_be_rated(self, rating_service, property_service, sample_property):
        await property_service.review_property("PROP1001", ReviewDecision(status="REJECTED", statusReason="Duplicate"))
        with pytest.raises(NotFoundError):
            await rating_service.rate_property("PROP1001", guest(1), RatingCreate(rating=4))

    @pytest.mark.asyncio
    async def test_summary_failure_keeps_the_rating(
        self, rating_service, property_service, sample_property, collections
    ):
        async def always_stale(query, doc):
            await asyncio.sleep(0)
            return type("Result", (), {"matched_count": 0})()

        original = collections.properties.replace_one
        collections.properties.replace_one = always_stale
        await rating_service.rate_property("PROP1001", guest(1), RatingCreate(rating=4))
        collections.properties.replace_one = original

        assert (await property_service.load("PROP1001")).rating_count == 0
        await rating_service.rate_property("PROP1001", guest(2), RatingCreate(rating=2))
        prop = await property_service.load("PROP1001")
        assert prop.rating_count == 2
        assert prop.average_rating == 3.0


class TestListingAndDeletion:
    @pytest.fixture
    async def rated(self, rating_service, sample_property):
        for n, value in enumerate([3, 5, 1], start=1):
            await rating_service.rate_property("PROP1001", guest(n), RatingCreate(rating=value))

    @pytest.mark.asyncio
    async def test_sorted_and_paged(self, rating_service, rated):
        result = await rating_service.list_ratings("PROP1001", page=1, limit=2, sort_by="rating", order="desc")

        assert [r["rating"] for r in result["ratings"]] == [5, 3]
        assert result["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert result["stats"]["averageRating"] == 3.0

    @pytest.mark.asyncio
    async def test_bad_sort_field(self, rating_service, rated):
        with pytest.raises(ValidationError):
            await rating_service.list_ratings("PROP1001", sort_by="userId")

    @pytest.mark.asyncio
    async def test_landlord_sees_ratings_across_properties(self, rating_service, rated, landlord, other_landlord):
        assert (await rating_service.landlord_ratings(landlord.user_id))["pagination"]["total"] == 3
        assert (await rating_service.landlord_ratings(other_landlord.user_id))["ratings"] == []

    @pytest.mark.asyncio
    async def test_delete_by_author_refreshes_summary(self, rating_service, property_service, rated):
        listing = await rating_service.list_ratings("PROP1001", sort_by="rating", order="asc")
        lowest = listing["ratings"][0]

        stats = await rating_service.delete_rating(lowest["_id"], guest(3))

        assert stats["totalRatings"] == 2
        assert stats["averageRating"] == 4.0
        assert (await property_service.load("PROP1001")).rating_count == 2
        with pytest.raises(NotFoundError):
            await rating_service.delete_rating(lowest["_id"], guest(3))

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self, rating_service, rated, other_landlord):
        listing = await rating_service.list_ratings("PROP1001")
        with pytest.raises(AuthorizationError):
            await rating_service.delete_rating(listing["ratings"][0]["_id"], other_landlord)
