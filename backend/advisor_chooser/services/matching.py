"""
Seller to advisor matching.

Advisors match a seller when they are active and accepting leads, cover the
seller's industry and geography, and their revenue band contains the
seller's annual revenue. Results are deterministic for a given database
state: CIM Amplify partners first, then the requested ordering, then id.
"""
import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from advisor_chooser.core.errors import NotFoundError
from advisor_chooser.models import Advisor, Seller
from advisor_chooser.schemas import AdvisorCard, MatchStats

logger = logging.getLogger(__name__)


def _fold(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def geography_variants(geography: Optional[str]) -> List[str]:
    """'Europe > France' matches advisors covering 'Europe > France' or 'Europe'."""
    if not geography or not geography.strip():
        return []
    variants = [geography.strip()]
    top_level = geography.split(">")[0].strip()
    if top_level and _fold(top_level) != _fold(variants[0]):
        variants.append(top_level)
    return variants


def _any_element_in(column, values: List[str]):
    element = func.unnest(column).column_valued("element")
    keys = [v.strip().lower() for v in values]
    return select(element).where(func.lower(element).in_(keys)).exists()


def _unique(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class MatchingService:
    """Deterministic advisor search for a seller profile."""

    def _load_seller(self, seller_user_id: uuid.UUID, db: Session) -> Seller:
        seller = db.query(Seller).filter(Seller.user_id == seller_user_id).first()
        if seller is None:
            raise NotFoundError("Seller profile not found")
        return seller

    def candidate_filters(self, seller: Seller, array_filters: bool = False) -> list:
        """
        WHERE criteria for advisors that can match `seller`.

        Revenue bounds are always applied in SQL. With array_filters the
        industry and geography checks also run in SQL, as a case-insensitive
        EXISTS over the unnested ARRAY columns (PostgreSQL only).
        """
        criteria = [Advisor.is_active.is_(True), Advisor.send_leads.is_(True)]
        revenue = seller.annual_revenue
        if revenue is not None:
            criteria.append(or_(Advisor.revenue_min.is_(None), Advisor.revenue_min <= revenue))
            criteria.append(or_(Advisor.revenue_max.is_(None), Advisor.revenue_max >= revenue))

        if array_filters:
            if seller.industry and seller.industry.strip():
                criteria.append(_any_element_in(Advisor.industries, [seller.industry]))
            geographies = geography_variants(seller.geography)
            if geographies:
                criteria.append(_any_element_in(Advisor.geographies, geographies))
        return criteria

    def _candidates(self, seller: Seller, db: Session) -> List[Advisor]:
        array_filters = db.get_bind().dialect.name == "postgresql"
        return (
            db.query(Advisor)
            .options(joinedload(Advisor.user))
            .filter(*self.candidate_filters(seller, array_filters=array_filters))
            .all()
        )

    def _match(self, seller: Seller, db: Session) -> List[Tuple[Advisor, List[str], List[str]]]:
        """All matching advisors with the industries and geographies they matched on."""
        industry = _fold(seller.industry)
        geo_keys = {_fold(v) for v in geography_variants(seller.geography)}

        matches = []
        for advisor in self._candidates(seller, db):
            industries = list(advisor.industries or [])
            geographies = list(advisor.geographies or [])

            if industry:
                matched_industries = [i for i in industries if _fold(i) == industry]
                if not matched_industries:
                    continue
            else:
                matched_industries = industries

            if geo_keys:
                matched_geographies = [g for g in geographies if _fold(g) in geo_keys]
                if not matched_geographies:
                    continue
            else:
                matched_geographies = geographies

            matches.append((advisor, matched_industries, matched_geographies))
        return matches

    def _sort(self, matches, sort_by: Optional[str]):
        # Stable sorts applied from the least to the most significant key.
        matches = sorted(matches, key=lambda m: str(m[0].id))
        if sort_by == "years":
            matches.sort(key=lambda m: m[0].years_experience or 0, reverse=True)
        elif sort_by == "company":
            matches.sort(key=lambda m: _fold(m[0].company_name))
        else:
            matches.sort(key=lambda m: m[0].created_at, reverse=True)
        matches.sort(key=lambda m: bool(m[0].worked_with_cimamplify), reverse=True)
        return matches

    def _to_card(self, advisor: Advisor, matched_industries: List[str], matched_geographies: List[str]) -> AdvisorCard:
        user = advisor.user
        name = (user.name or "").strip() if user else ""
        email = (user.email or "").strip() if user else ""
        return AdvisorCard(
            id=advisor.id,
            user_id=advisor.user_id,
            company_name=advisor.company_name,
            advisor_name=name or advisor.company_name or "Advisor",
            advisor_email=email or "Not provided",
            phone=advisor.phone,
            website=advisor.website,
            description=advisor.description,
            logo_url=advisor.logo_url,
            intro_video_url=advisor.intro_video_url,
            licensing=advisor.licensing,
            currency=advisor.currency or "USD",
            industries=list(advisor.industries or []),
            geographies=list(advisor.geographies or []),
            matched_industries=matched_industries,
            matched_geographies=matched_geographies,
            revenue_min=advisor.revenue_min,
            revenue_max=advisor.revenue_max,
            years_experience=advisor.years_experience or 0,
            number_of_transactions=advisor.number_of_transactions or 0,
            testimonials=list(advisor.testimonials or []),
            worked_with_cimamplify=bool(advisor.worked_with_cimamplify),
            created_at=advisor.created_at,
        )

    def find_matches(
        self,
        seller_user_id: uuid.UUID,
        db: Session,
        sort_by: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AdvisorCard]:
        """
        Matching advisors for a seller.

        Pagination applies only when `limit` is positive; otherwise every
        match is returned.

        Raises:
            NotFoundError: the user has no seller profile
        """
        seller = self._load_seller(seller_user_id, db)
        matches = self._sort(self._match(seller, db), sort_by)

        if limit and limit > 0:
            current_page = page if page and page > 0 else 1
            offset = (current_page - 1) * limit
            matches = matches[offset:offset + limit]

        logger.debug(f"Seller {seller_user_id}: {len(matches)} advisor matches (sort={sort_by})")
        return [self._to_card(*match) for match in matches]

    def get_match_stats(self, seller_user_id: uuid.UUID, db: Session) -> MatchStats:
        """Totals over the full, unpaginated match set."""
        cards = self.find_matches(seller_user_id, db)
        return MatchStats(
            total_matches=len(cards),
            industries=_unique([i for card in cards for i in card.industries]),
            geographies=_unique([g for card in cards for g in card.geographies]),
        )


# Global service instance
matching_service = MatchingService()
