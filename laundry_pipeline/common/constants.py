"""Application constants."""

USER_AGENT = "laundry-pipeline/1.0 (+directory import; contact: configured-email)"
JOBS = (
    "import",
    "enrich",
    "fix-addresses",
    "recount",
    "enrich-file",
    "status",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
REQUIRED_ENV_VARS = ("DATABASE_URL", "GOOGLE_MAPS_API_KEY")
JSON_LOG_FIELDS = (
    "timestamp",
    "level",
    "run_id",
    "job",
    "record_id",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "processed",
    "skipped",
    "errored",
    "error_code",
    "message",
)
MAX_PROGRESS_ERRORS = 100
NEARBY_GROUPS = ("food", "activities", "shopping", "transit", "community")
PLACEHOLDER_ADDRESS_MARKERS = ("123 Main", "Placeholder")
STATE_NAME_BY_CODE = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
    "DC": "District of Columbia",
}
STATE_CODE_BY_NAME = {name.lower(): code for code, name in STATE_NAME_BY_CODE.items()}
