"""Synthetic HINTS-like survey extracts for tests."""

import numpy as np
import pandas as pd

# JSON analysis configuration equivalent to the HINTS presets
HINTS_CONFIG = {
    "missing_codes": [-9, -7, -6, -5, -4, -2, -1],
    "recodes": [
        {"source_column": "BirthGender", "target_column": "gender",
         "mapping": {"1": "Male", "2": "Female"}, "reference_label": "Male"},
        {"source_column": "GeneralHealth", "target_column": "genhealth",
         "mapping": {"1": "Excellent", "2": "Very good", "3": "Good", "4": "Fair", "5": "Poor"},
         "reference_label": "Excellent", "ordered": True}
    ],
    "designs": {
        "jackknife": {"type": "replicate", "weight": "PERSON_FINWT0",
                      "replicate_prefix": "PERSON_FINWT", "replicates": 50, "scale": 0.98},
        "taylor": {"type": "linearization", "weight": "PERSON_FINWT0",
                   "cluster": "VAR_CLUSTER", "stratum": "VAR_STRATUM", "nested": True}
    }
}


def make_hints_frame(n: int = 400,
                     seed: int = 42,
                     n_replicates: int = 50,
                     n_strata: int = 10,
                     clusters_per_stratum: int = 3) -> pd.DataFrame:
    """
    Respondent-level frame with raw codes, a base weight, replicate weights
    and cluster/stratum identifiers (cluster ids reused across strata).
    """
    rng = np.random.RandomState(seed)
    index = np.arange(n)

    birth_gender = rng.choice([1, 2], n)
    education = rng.choice([1, 2, 3, 4, 5, 6, 7], n)
    age = rng.randint(18, 90, n)

    # Women and older respondents seek cancer information more often
    logit = -0.8 + 0.9 * (birth_gender == 2) + 0.02 * (age - 50)
    seek = np.where(rng.uniform(size=n) < 1 / (1 + np.exp(-logit)), 1, 2)

    data = pd.DataFrame({
        'HHID': index + 1000,
        'BirthGender': birth_gender.astype(float),
        'Education': education.astype(float),
        'Age': age.astype(float),
        'SeekCancerInfo': seek.astype(float),
        'GeneralHealth': rng.choice([1, 2, 3, 4, 5], n).astype(float),
        'ChanceAskQuestions': rng.choice([1, 2, 3, 4], n).astype(float),
        'VAR_STRATUM': (index % n_strata + 1).astype(float),
        'VAR_CLUSTER': ((index // n_strata) % clusters_per_stratum + 1).astype(float),
        'PERSON_FINWT0': rng.uniform(500, 5000, n),
    })

    # Non-response codes
    data.loc[[3, 17, 45], 'BirthGender'] = -9
    data.loc[[8, 60], 'Education'] = -7
    data.loc[[11, 12, 99], 'SeekCancerInfo'] = -5
    data.loc[[5, 50], 'ChanceAskQuestions'] = -1

    for r in range(1, n_replicates + 1):
        data[f'PERSON_FINWT{r}'] = data['PERSON_FINWT0'] * rng.uniform(0.9, 1.1, n)

    return data
