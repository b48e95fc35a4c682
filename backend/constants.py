"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Association statuses, roles, genders, reporting periods, cache TTL tiers and
completeness field lists are defined here and imported elsewhere.

DO NOT duplicate these definitions in other files.
"""

# =============================================================================
# ASSOCIATION STATUS (demander.status)
# =============================================================================

STATUS_ACTIVE = 'active'
STATUS_ARCHIVED = 'archive'

ASSOCIATION_STATUSES = [STATUS_ACTIVE, STATUS_ARCHIVED]


# =============================================================================
# DERIVED STATES
# =============================================================================

PROPERTY_AVAILABLE = 'available'
PROPERTY_ACQUIRED = 'acquired'
PROPERTY_UNLINKED = 'unlinked'

APPLICANT_ACTIVE = 'active'
APPLICANT_ACQUIRED = 'acquired'
APPLICANT_UNLINKED = 'unlinked'


# =============================================================================
# ROLES (users.role)
# =============================================================================

ROLE_SUPER_ADMIN = 'super_admin'
ROLE_CENTRAL_USER = 'central_user'
ROLE_ADMIN_DISTRICT = 'admin_district'
ROLE_USER_DISTRICT = 'user_district'

# Roles allowed to see every district
UNRESTRICTED_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_CENTRAL_USER})


# =============================================================================
# GENDER (demandeurs.sexe)
# =============================================================================

GENDER_MALE = 'Homme'
GENDER_FEMALE = 'Femme'

# Stored value -> reporting key. Anything else is excluded from per-gender tables.
GENDER_LABELS = {
    GENDER_MALE: 'male',
    GENDER_FEMALE: 'female',
}

RECOGNIZED_GENDERS = list(GENDER_LABELS.keys())


def get_gender_label(value) -> str:
    """
    Map a stored gender value to its reporting key.

    Returns None for missing or unrecognized values.
    """
    if not value:
        return None
    return GENDER_LABELS.get(str(value).strip())


# =============================================================================
# AGE BRACKETS
# =============================================================================

# (label, min_age, max_age) - both bounds inclusive
AGE_BRACKETS = [
    ('18-30', 18, 30),
    ('31-45', 31, 45),
    ('46-60', 46, 60),
    ('61+', 61, 999),
]


def get_age_bracket(age: int) -> str:
    """Return the bracket label for an age, or None below the first bracket."""
    for label, min_age, max_age in AGE_BRACKETS:
        if min_age <= age <= max_age:
            return label
    return None


# =============================================================================
# CASE AGING
# =============================================================================

# Open cases older than this are reported as overdue
OVERDUE_THRESHOLD_DAYS = 90

TOP_COMMUNES_LIMIT = 10
TOP_DISTRICTS_LIMIT = 10

# Dashboard KPIs look back over this many months
KPI_LOOKBACK_MONTHS = 12

# Chart series lookback
CHART_MONTHS = 12
CHART_QUARTERS = 4

UNDEFINED_LABEL = 'Undefined'


# =============================================================================
# REPORTING PERIODS
# =============================================================================
#
# Usage:
#   from services.statistics.periods import resolve_period
#   window = resolve_period('week', now=now)
#

PERIOD_TODAY = 'today'
PERIOD_WEEK = 'week'
PERIOD_MONTH = 'month'
PERIOD_YEAR = 'year'
PERIOD_ALL = 'all'
PERIOD_CUSTOM = 'custom'

PERIOD_TOKENS = [PERIOD_TODAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_YEAR, PERIOD_ALL, PERIOD_CUSTOM]

# Unknown tokens fall back to this one
DEFAULT_PERIOD = PERIOD_MONTH

# 'all' with no case on record starts this many years back
ALL_PERIOD_FALLBACK_YEARS = 10

DEFAULT_REPORTING_TIMEZONE = 'Indian/Antananarivo'

WARM_UP_PERIODS = [PERIOD_TODAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_YEAR]


# =============================================================================
# CACHE TTL TIERS (seconds)
# =============================================================================

TTL_SHORT = 300        # 5 minutes - real-time counters
TTL_MEDIUM = 900       # 15 minutes - entity level breakdowns
TTL_LONG = 1800        # 30 minutes - expensive cross joins
TTL_VERY_LONG = 3600   # 1 hour - warm-up entries

# Checked in order, first substring match wins
TTL_TIERS = [
    ('overview', TTL_SHORT),
    ('kpi', TTL_SHORT),
    ('cases', TTL_MEDIUM),
    ('properties', TTL_MEDIUM),
    ('applicants', TTL_MEDIUM),
    ('charts', TTL_LONG),
    ('demographics', TTL_LONG),
    ('financials', TTL_LONG),
]

DEFAULT_TTL = TTL_MEDIUM
WARM_UP_TTL = TTL_VERY_LONG

CACHE_PREFIX = 'stats'
CACHE_MAX_ENTRIES = 2000


# =============================================================================
# COMPLETENESS FIELDS
# =============================================================================
#
# Attribute names on the models. A record is incomplete when any string field
# is NULL or empty, any date field is NULL, or any numeric field is NULL or <= 0.

APPLICANT_STRING_FIELDS = [
    'title', 'last_name', 'first_name', 'national_id',
    'address', 'gender', 'birth_place', 'occupation',
    'marital_status', 'matrimonial_regime', 'nationality',
    'father_name', 'mother_name', 'spouse_name', 'phone',
    'id_issue_place', 'duplicate_issue_place', 'marriage_place',
]

APPLICANT_DATE_FIELDS = [
    'birth_date', 'id_issue_date', 'duplicate_issue_date', 'marriage_date',
]

PROPERTY_STRING_FIELDS = [
    'lot', 'title', 'parent_title', 'owner', 'nature', 'vocation',
    'situation', 'operation_type', 'charge', 'fn_number', 'requisition_number',
    'dep_vol', 'dep_vol_number', 'parent_property',
]

PROPERTY_NUMERIC_FIELDS = ['area']

# Headline completeness on the dashboard only checks these (NULL = missing)
KPI_PROPERTY_REQUIRED_FIELDS = ['lot', 'area', 'nature', 'vocation']
KPI_APPLICANT_REQUIRED_FIELDS = ['last_name', 'birth_date', 'national_id', 'address']


# =============================================================================
# AGGREGATE GROUPS
# =============================================================================

GROUP_OVERVIEW = 'overview'
GROUP_CASES = 'cases'
GROUP_PROPERTIES = 'properties'
GROUP_APPLICANTS = 'applicants'
GROUP_DEMOGRAPHICS = 'demographics'
GROUP_FINANCIALS = 'financials'
GROUP_GEOGRAPHIC = 'geographic'
GROUP_PERFORMANCE = 'performance'
GROUP_KPIS = 'kpis'
GROUP_ALERTS = 'alerts'

# Statistics page bundle, in response order
STATS_GROUPS = [
    GROUP_OVERVIEW, GROUP_CASES, GROUP_PROPERTIES, GROUP_APPLICANTS,
    GROUP_DEMOGRAPHICS, GROUP_FINANCIALS, GROUP_GEOGRAPHIC, GROUP_PERFORMANCE,
]

# Dashboard groups ignore the reporting period
DASHBOARD_GROUPS = [GROUP_KPIS, GROUP_ALERTS]

CHART_SERIES = [
    'evolution', 'openings_closings', 'by_nature', 'by_vocation',
    'top_communes', 'top_districts', 'age_pyramid', 'completion_rate',
    'quarterly_performance', 'revenue_by_vocation',
]
