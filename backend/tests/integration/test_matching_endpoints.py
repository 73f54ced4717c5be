"""
Integration tests for seller matching endpoints.
"""
from datetime import datetime

import pytest

from advisor_chooser.models import Advisor, Seller, User


@pytest.fixture
def marketplace(db, seller_user):
    db.add(Seller(
        user_id=seller_user.id,
        company_name="Widget Co",
        industry="Retail",
        geography="Europe > France",
        annual_revenue=2_000_000,
    ))
    for i, name in enumerate(["Alpha", "Bravo", "Charlie"]):
        user = User(email=f"{name.lower()}@test.com", name=name, role="advisor")
        db.add(user)
        db.flush()
        db.add(Advisor(
            user_id=user.id,
            company_name=f"{name} Advisory",
            industries=["Retail"],
            geographies=["Europe"],
            revenue_min=1_000_000,
            revenue_max=5_000_000,
            years_experience=10 + i,
            created_at=datetime(2026, 1, i + 1),
        ))
    db.commit()


class TestMatchesEndpoint:
    def test_all_matches(self, client_for, seller_user, marketplace):
        response = client_for(seller_user).get("/api/v1/matching/matches")

        assert response.status_code == 200
        assert [a["company_name"] for a in response.json()] == [
            "Charlie Advisory", "Bravo Advisory", "Alpha Advisory",
        ]

    def test_sorted_and_paginated(self, client_for, seller_user, marketplace):
        response = client_for(seller_user).get(
            "/api/v1/matching/matches", params={"sort_by": "company", "page": 2, "limit": 2}
        )

        assert [a["company_name"] for a in response.json()] == ["Charlie Advisory"]

    def test_invalid_sort_is_422(self, client_for, seller_user, marketplace):
        response = client_for(seller_user).get("/api/v1/matching/matches", params={"sort_by": "price"})

        assert response.status_code == 422

    def test_advisors_forbidden(self, client_for, advisor_user):
        response = client_for(advisor_user).get("/api/v1/matching/matches")

        assert response.status_code == 403

    def test_seller_without_profile_is_404(self, client_for, seller_user):
        response = client_for(seller_user).get("/api/v1/matching/matches")

        assert response.status_code == 404

    def test_stats(self, client_for, seller_user, marketplace):
        response = client_for(seller_user).get("/api/v1/matching/stats")

        assert response.json() == {"total_matches": 3, "industries": ["Retail"], "geographies": ["Europe"]}
