"""
Tests for derived property / applicant states.

The grouped statement and the EXISTS-per-state reference must agree on
every fixture.
"""
import random
from datetime import date, datetime

import pytest

from constants import GENDER_MALE, GENDER_FEMALE, STATUS_ACTIVE, STATUS_ARCHIVED
from services.statistics.access_scope import EMPTY_SCOPE, Scope
from services.statistics.classifier import (
    classify_applicants,
    classify_applicants_by_existence,
    classify_properties,
    classify_properties_by_existence,
)
from services.statistics.periods import PeriodWindow

ALL = Scope(unrestricted=True)


@pytest.fixture
def three_properties(factory):
    """P1 active, P2 archived only, P3 no association."""
    district = factory.district()
    case = factory.case(district)
    p1 = factory.property(case, area=100)
    p2 = factory.property(case, area=200)
    p3 = factory.property(case, area=300)

    a1 = factory.applicant([case], gender=GENDER_MALE)
    a2 = factory.applicant([case], gender=GENDER_FEMALE)
    factory.associate(a1, p1, status=STATUS_ACTIVE)
    factory.associate(a2, p2, status=STATUS_ARCHIVED)
    return district, (p1, p2, p3)


class TestPropertyStates:

    def test_one_of_each_state(self, session, three_properties):
        result = classify_properties(session, ALL)

        assert result.available_count == 1
        assert result.acquired_count == 1
        assert result.unlinked_count == 1
        assert result.total_count == 3
        assert (result.available_area, result.acquired_area, result.unlinked_area) == (100, 200, 300)
        assert result.total_area == 600

    def test_active_wins_over_archived(self, session, factory):
        district = factory.district()
        case = factory.case(district)
        prop = factory.property(case)
        factory.associate(factory.applicant([case]), prop, status=STATUS_ARCHIVED)
        factory.associate(factory.applicant([case]), prop, status=STATUS_ACTIVE)

        result = classify_properties(session, ALL)

        assert result.available_count == 1
        assert result.acquired_count == 0

    def test_states_partition_total(self, session, three_properties):
        result = classify_properties(session, ALL)
        assert result.available_count + result.acquired_count + result.unlinked_count == result.total_count

    def test_null_area_counts_as_zero(self, session, factory):
        case = factory.case(factory.district())
        factory.property(case, area=None, complete=False)

        result = classify_properties(session, ALL)

        assert result.unlinked_count == 1
        assert result.total_area == 0

    def test_grouped_matches_existence(self, session, three_properties):
        assert classify_properties(session, ALL) == classify_properties_by_existence(session, ALL)

    def test_window_filters_on_case_opening(self, session, factory):
        district = factory.district()
        inside = factory.case(district, opened_on=date(2024, 6, 5))
        outside = factory.case(district, opened_on=date(2024, 4, 5))
        factory.property(inside)
        factory.property(outside)
        factory.property(outside)
        window = PeriodWindow(datetime(2024, 6, 1), datetime(2024, 6, 30, 23, 59, 59), "month")

        assert classify_properties(session, ALL, window).total_count == 1
        assert classify_properties(session, ALL).total_count == 3

    def test_scope_filters_districts(self, session, factory, three_properties):
        other = factory.district(name="Other")
        factory.property(factory.case(other))
        district, _ = three_properties

        assert classify_properties(session, Scope(False, district.id)).total_count == 3
        assert classify_properties(session, Scope(False, other.id)).total_count == 1
        assert classify_properties(session, EMPTY_SCOPE).total_count == 0


class TestApplicantStates:

    def test_gender_breakdown(self, session, three_properties, factory):
        district, _ = three_properties
        case = factory.case(district)
        factory.applicant([case], gender=GENDER_FEMALE)
        factory.applicant([case], gender=None, complete=False)

        result = classify_applicants(session, ALL)

        assert (result.active, result.acquired, result.unlinked, result.total) == (1, 1, 2, 4)
        assert result.by_gender["male"] == {"total": 1, "active": 1, "acquired": 0, "unlinked": 0}
        assert result.by_gender["female"] == {"total": 2, "active": 0, "acquired": 1, "unlinked": 1}

    def test_gender_whitespace_is_trimmed(self, session, factory):
        case = factory.case(factory.district())
        factory.applicant([case], gender=" Femme ")

        assert classify_applicants(session, ALL).by_gender["female"]["total"] == 1

    def test_active_anywhere_makes_applicant_active(self, session, factory):
        """State spans every property of the applicant."""
        district = factory.district()
        case = factory.case(district)
        applicant = factory.applicant([case])
        factory.associate(applicant, factory.property(case), status=STATUS_ARCHIVED)
        factory.associate(applicant, factory.property(case), status=STATUS_ACTIVE)

        result = classify_applicants(session, ALL)

        assert (result.active, result.acquired) == (1, 0)

    def test_applicant_in_two_cases_counted_once(self, session, factory):
        district = factory.district()
        factory.applicant([factory.case(district), factory.case(district)])

        assert classify_applicants(session, ALL).total == 1

    def test_applicant_without_case_is_invisible(self, session, factory):
        factory.district()
        factory.applicant([])

        assert classify_applicants(session, ALL).total == 0

    def test_grouped_matches_existence(self, session, three_properties, factory):
        district, (p1, p2, p3) = three_properties
        case = factory.case(district)
        extra = factory.applicant([case], gender=GENDER_MALE)
        factory.associate(extra, p3, status=STATUS_ARCHIVED)
        factory.associate(extra, p2, status=STATUS_ARCHIVED)

        assert classify_applicants(session, ALL) == classify_applicants_by_existence(session, ALL)

    def test_to_dict_shape(self, session, three_properties):
        payload = classify_applicants(session, ALL).to_dict()
        assert set(payload) == {"total", "active", "acquired", "unlinked", "by_gender"}
        assert set(payload["by_gender"]) == {"male", "female"}


GENDERS = [GENDER_MALE, GENDER_FEMALE, None, "", " Femme ", "Homme  ", "X"]
AREAS = [None, 0, 150, 1200, 5000]
OPENINGS = [date(2024, 2, 10), date(2024, 5, 31), date(2024, 6, 1), date(2024, 6, 12), date(2024, 6, 30)]
JUNE = PeriodWindow(datetime(2024, 6, 1), datetime(2024, 6, 30, 23, 59, 59), "month")


@pytest.fixture(params=[1, 7, 42])
def random_dataset(request, factory):
    """Three districts, 40 properties, 30 applicants, seeded."""
    rng = random.Random(request.param)
    districts = [factory.district(name=f"District {i}") for i in range(3)]
    cases = [
        factory.case(rng.choice(districts), opened_on=rng.choice(OPENINGS))
        for _ in range(10)
    ]
    properties = [
        factory.property(rng.choice(cases), area=rng.choice(AREAS), complete=False)
        for _ in range(40)
    ]
    for _ in range(30):
        applicant = factory.applicant(
            rng.sample(cases, rng.randint(0, 2)),
            gender=rng.choice(GENDERS),
            complete=False,
        )
        for prop in rng.sample(properties, rng.randint(0, 3)):
            factory.associate(applicant, prop, status=rng.choice([STATUS_ACTIVE, STATUS_ARCHIVED]))
    return districts


def _scopes(districts):
    return {
        "all": ALL,
        "narrowed": Scope(True, districts[0].id),
        "restricted": Scope(False, districts[1].id),
        "empty": EMPTY_SCOPE,
    }


class TestGroupedMatchesExistenceOnRandomData:

    @pytest.mark.parametrize("scope_name", ["all", "narrowed", "restricted", "empty"])
    @pytest.mark.parametrize("window", [None, JUNE], ids=["no-window", "june"])
    def test_properties(self, session, random_dataset, scope_name, window):
        scope = _scopes(random_dataset)[scope_name]
        grouped = classify_properties(session, scope, window)

        assert grouped == classify_properties_by_existence(session, scope, window)
        assert grouped.available_count + grouped.acquired_count + grouped.unlinked_count == grouped.total_count

    @pytest.mark.parametrize("scope_name", ["all", "narrowed", "restricted", "empty"])
    @pytest.mark.parametrize("window", [None, JUNE], ids=["no-window", "june"])
    def test_applicants(self, session, random_dataset, scope_name, window):
        scope = _scopes(random_dataset)[scope_name]
        grouped = classify_applicants(session, scope, window)

        assert grouped == classify_applicants_by_existence(session, scope, window)
        assert grouped.active + grouped.acquired + grouped.unlinked == grouped.total
        for counts in grouped.by_gender.values():
            assert counts["active"] + counts["acquired"] + counts["unlinked"] == counts["total"]
