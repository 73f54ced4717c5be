"""
Unit tests for seller to advisor matching.
"""
from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from advisor_chooser.core.errors import NotFoundError
from advisor_chooser.models import Advisor, Seller, User
from advisor_chooser.services.matching import geography_variants, matching_service


@pytest.fixture
def seller(db, seller_user):
    profile = Seller(
        user_id=seller_user.id,
        company_name="Widget Co",
        industry="Manufacturing",
        geography="North America > Canada",
        annual_revenue=5_000_000,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def add_advisor(db):
    counter = {"n": 0}

    def _add(company, industries=("Manufacturing",), geographies=("North America",),
             revenue_min=1_000_000, revenue_max=10_000_000, **fields):
        counter["n"] += 1
        user = User(email=f"adv{counter['n']}@test.com", name=f"Advisor {counter['n']}", role="advisor")
        db.add(user)
        db.flush()
        fields.setdefault("created_at", datetime(2026, 1, counter["n"]))
        advisor = Advisor(
            user_id=user.id,
            company_name=company,
            industries=list(industries),
            geographies=list(geographies),
            revenue_min=revenue_min,
            revenue_max=revenue_max,
            **fields,
        )
        db.add(advisor)
        db.commit()
        return advisor

    return _add


class TestFiltering:
    def test_matches_industry_and_parent_geography(self, db, seller, seller_user, add_advisor):
        add_advisor("Match Partners")

        cards = matching_service.find_matches(seller_user.id, db)

        assert [c.company_name for c in cards] == ["Match Partners"]
        assert cards[0].matched_industries == ["Manufacturing"]
        assert cards[0].matched_geographies == ["North America"]

    def test_industry_match_is_case_insensitive(self, db, seller, seller_user, add_advisor):
        add_advisor("Lower", industries=["manufacturing"])

        assert len(matching_service.find_matches(seller_user.id, db)) == 1

    def test_other_industry_excluded(self, db, seller, seller_user, add_advisor):
        add_advisor("Tech Only", industries=["Software"])

        assert matching_service.find_matches(seller_user.id, db) == []

    def test_other_region_excluded(self, db, seller, seller_user, add_advisor):
        add_advisor("Europe Only", geographies=["Europe"])

        assert matching_service.find_matches(seller_user.id, db) == []

    def test_revenue_bounds_are_inclusive(self, db, seller, seller_user, add_advisor):
        add_advisor("Exact Min", revenue_min=5_000_000, revenue_max=6_000_000)
        add_advisor("Exact Max", revenue_min=1_000_000, revenue_max=5_000_000)
        add_advisor("Too Small", revenue_min=100, revenue_max=4_999_999)
        add_advisor("Too Big", revenue_min=5_000_001, revenue_max=None)
        add_advisor("Open Band", revenue_min=None, revenue_max=None)

        names = {c.company_name for c in matching_service.find_matches(seller_user.id, db)}

        assert names == {"Exact Min", "Exact Max", "Open Band"}

    def test_inactive_and_paused_excluded(self, db, seller, seller_user, add_advisor):
        add_advisor("Inactive", is_active=False)
        add_advisor("Paused", send_leads=False)
        add_advisor("Live")

        assert [c.company_name for c in matching_service.find_matches(seller_user.id, db)] == ["Live"]

    def test_missing_seller_profile(self, db, seller_user):
        with pytest.raises(NotFoundError, match="Seller profile not found"):
            matching_service.find_matches(seller_user.id, db)

    def test_array_filters_pushed_into_sql(self, seller):
        criteria = matching_service.candidate_filters(seller, array_filters=True)
        query = select(Advisor.id).where(*criteria)

        sql = str(query.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))

        assert "unnest(advisors.industries)" in sql
        assert "unnest(advisors.geographies)" in sql
        assert "'manufacturing'" in sql
        assert "'north america > canada', 'north america'" in sql

    def test_array_filters_skipped_without_seller_fields(self, seller_user):
        open_seller = Seller(user_id=seller_user.id, company_name="Open Co")

        criteria = matching_service.candidate_filters(open_seller, array_filters=True)

        assert len(criteria) == 2

    def test_geography_variants(self):
        assert geography_variants("Europe > France") == ["Europe > France", "Europe"]
        assert geography_variants("Europe") == ["Europe"]
        assert geography_variants("  ") == []


class TestOrdering:
    def test_partners_first_then_newest(self, db, seller, seller_user, add_advisor):
        add_advisor("Old")
        add_advisor("Partner", worked_with_cimamplify=True)
        add_advisor("New")

        names = [c.company_name for c in matching_service.find_matches(seller_user.id, db)]

        assert names == ["Partner", "New", "Old"]

    def test_sort_by_years(self, db, seller, seller_user, add_advisor):
        add_advisor("Junior", years_experience=2)
        add_advisor("Senior", years_experience=25)

        names = [c.company_name for c in matching_service.find_matches(seller_user.id, db, sort_by="years")]

        assert names == ["Senior", "Junior"]

    def test_sort_by_company(self, db, seller, seller_user, add_advisor):
        add_advisor("zeta")
        add_advisor("Alpha")

        names = [c.company_name for c in matching_service.find_matches(seller_user.id, db, sort_by="company")]

        assert names == ["Alpha", "zeta"]

    def test_ties_are_deterministic(self, db, seller, seller_user, add_advisor):
        same_day = datetime(2026, 2, 1)
        for name in ("A", "B", "C"):
            add_advisor(name, created_at=same_day)

        first = [c.id for c in matching_service.find_matches(seller_user.id, db)]
        second = [c.id for c in matching_service.find_matches(seller_user.id, db)]

        assert first == second
        assert first == sorted(first, key=str)


class TestPaginationAndStats:
    def test_pagination(self, db, seller, seller_user, add_advisor):
        for i in range(5):
            add_advisor(f"Firm {i}")

        everything = matching_service.find_matches(seller_user.id, db)
        page_two = matching_service.find_matches(seller_user.id, db, page=2, limit=2)

        assert len(everything) == 5
        assert [c.id for c in page_two] == [c.id for c in everything[2:4]]

    def test_page_past_end_is_empty(self, db, seller, seller_user, add_advisor):
        add_advisor("Only")

        assert matching_service.find_matches(seller_user.id, db, page=3, limit=10) == []

    def test_stats(self, db, seller, seller_user, add_advisor):
        add_advisor("One", industries=["Manufacturing", "Retail"], geographies=["North America"])
        add_advisor("Two", industries=["Manufacturing"], geographies=["North America > Canada"])

        stats = matching_service.get_match_stats(seller_user.id, db)

        assert stats.total_matches == 2
        assert set(stats.industries) == {"Manufacturing", "Retail"}
        assert set(stats.geographies) == {"North America", "North America > Canada"}

    def test_card_contact_fallbacks(self, db, seller, seller_user, add_advisor):
        advisor = add_advisor("Fallback Inc")
        advisor.user.name = None
        db.commit()

        card = matching_service.find_matches(seller_user.id, db)[0]

        assert card.advisor_name == "Fallback Inc"
        assert card.advisor_email.startswith("adv")
