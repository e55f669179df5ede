"""
HINTS codebook presets.

Recoding rules and survey design descriptors for the Health Information
National Trends Survey public-use files (HINTS 6 and HINTS 5 Cycle 4). The
codes follow the published codebooks; negative codes are non-response
categories and are treated as missing.
"""

from .data_processing.models import RecodeRule, ReplicateWeights, Linearization, MergeSource
from .data_processing.survey_design import replicate_columns

# -9 missing, -7 refused, -6 missing (filter), -5 multiple responses,
# -4 unreadable, -2 answered in error, -1 inapplicable
MISSING_CODES = [-9, -7, -6, -5, -4, -2, -1]

WEIGHT = "PERSON_FINWT0"
REPLICATE_PREFIX = "PERSON_FINWT"
N_REPLICATES = 50
CLUSTER = "VAR_CLUSTER"
STRATUM = "VAR_STRATUM"

HINTS6_LABEL = "HINTS 6"
HINTS5_CYCLE4_LABEL = "HINTS 5 Cycle 4"

GENDER = RecodeRule(
    source_column="BirthGender",
    target_column="gender",
    mapping={1: "Male", 2: "Female"},
    reference_label="Male"
)

EDUCATION = RecodeRule(
    source_column="Education",
    target_column="edu",
    mapping={
        1: "Less than high school",
        2: "Less than high school",
        3: "12 years or completed high school",
        4: "Some college",
        5: "Some college",
        6: "College graduate or higher",
        7: "College graduate or higher",
    },
    reference_label="Less than high school",
    ordered=True
)

SEEK_CANCER_INFO = RecodeRule(
    source_column="SeekCancerInfo",
    target_column="seekcancerinfo",
    mapping={1: "Yes", 2: "No"},
    reference_label="No"
)

GENERAL_HEALTH = RecodeRule(
    source_column="GeneralHealth",
    target_column="genhealth",
    mapping={
        1: "Excellent",
        2: "Very good",
        3: "Good",
        4: "Fair",
        5: "Poor",
    },
    reference_label="Excellent",
    ordered=True
)

CHANCE_ASK_QUESTIONS = RecodeRule(
    source_column="ChanceAskQuestions",
    target_column="chanceaskquestions",
    mapping={
        1: "Always",
        2: "Usually",
        3: "Sometimes",
        4: "Never",
    },
    reference_label="Always",
    ordered=True
)

RECODE_RULES = [GENDER, EDUCATION, SEEK_CANCER_INFO, GENERAL_HEALTH, CHANCE_ASK_QUESTIONS]


def replicate_design() -> ReplicateWeights:
    """Jackknife design for a single HINTS iteration: 50 replicates, scale 49/50."""
    return ReplicateWeights(
        weight=WEIGHT,
        replicate_weights=tuple(replicate_columns(REPLICATE_PREFIX, N_REPLICATES)),
        type="JKn",
        scale=(N_REPLICATES - 1) / N_REPLICATES,
        rscales=tuple([1.0] * N_REPLICATES)
    )


def linearization_design() -> Linearization:
    """Taylor-series design using the HINTS variance strata and clusters."""
    return Linearization(
        cluster_id=CLUSTER,
        stratum_id=STRATUM,
        weight=WEIGHT,
        nested=True
    )


def merge_source(label: str) -> MergeSource:
    return MergeSource(
        label=label,
        weight=WEIGHT,
        replicate_weights=tuple(replicate_columns(REPLICATE_PREFIX, N_REPLICATES)),
        scale=(N_REPLICATES - 1) / N_REPLICATES
    )
