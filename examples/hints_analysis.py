"""
HINTS analysis example using the SurveyDesignTool.

Runs the full workflow on the Health Information National Trends Survey:
recoding, jackknife and linearization designs, weighted crosstabs, a
Rao-Scott test, a survey-weighted logistic regression and the merge of
HINTS 6 with HINTS 5 Cycle 4.

Pass the two public-use SPSS files to analyse real data:

    python hints_analysis.py hints6.sav hints5_cycle4.sav

Without arguments a simulated extract with the same layout is used.
"""

import sys
import pandas as pd
import numpy as np

from SurveyDesignTool import SurveyDesignTool, hints


def simulate_hints_extract(n_responses=2000, seed=42):
    """Simulated respondent file with HINTS codes, weights and strata."""
    rng = np.random.RandomState(seed)
    index = np.arange(n_responses)

    gender = rng.choice([1, 2], n_responses)
    age = rng.randint(18, 90, n_responses)
    logit = -0.6 + 0.8 * (gender == 2) + 0.015 * (age - 50)

    data = pd.DataFrame({
        'BirthGender': gender.astype(float),
        'Education': rng.choice([1, 2, 3, 4, 5, 6, 7], n_responses).astype(float),
        'Age': age.astype(float),
        'SeekCancerInfo': np.where(rng.uniform(size=n_responses) < 1 / (1 + np.exp(-logit)), 1.0, 2.0),
        'GeneralHealth': rng.choice([1, 2, 3, 4, 5], n_responses, p=[0.15, 0.35, 0.3, 0.15, 0.05]).astype(float),
        'ChanceAskQuestions': rng.choice([1, 2, 3, 4], n_responses, p=[0.5, 0.3, 0.15, 0.05]).astype(float),
        'VAR_STRATUM': (index % 25 + 1).astype(float),
        'VAR_CLUSTER': ((index // 25) % 4 + 1).astype(float),
        'PERSON_FINWT0': rng.uniform(2000, 20000, n_responses),
    })

    # Scatter non-response codes through the items
    for column, code in [('BirthGender', -9), ('Education', -7), ('SeekCancerInfo', -5)]:
        data.loc[rng.choice(n_responses, 20, replace=False), column] = code

    replicates = {
        f'PERSON_FINWT{r}': data['PERSON_FINWT0'] * rng.uniform(0.9, 1.1, n_responses)
        for r in range(1, hints.N_REPLICATES + 1)
    }
    data = pd.concat([data, pd.DataFrame(replicates)], axis=1)
    data = data.mask(data.isin(hints.MISSING_CODES))
    return data


def load_cycles(analyzer, paths):
    """Load both cycles from disk or simulate them."""
    if len(paths) == 2:
        first = analyzer.load_survey_data(paths[0], missing_codes=hints.MISSING_CODES)
        second = analyzer.load_survey_data(paths[1], missing_codes=hints.MISSING_CODES)
        return first, second
    print("   - No files given; using simulated extracts")
    return simulate_hints_extract(seed=42), simulate_hints_extract(n_responses=1800, seed=7)


def main(paths):
    """Run the HINTS example."""
    print("=" * 60)
    print("HINTS SURVEY DESIGN ANALYSIS EXAMPLE")
    print("=" * 60)

    analyzer = SurveyDesignTool(log_level='WARNING')

    # Step 1: Data
    print("\n1. Loading survey data...")
    hints6, hints5 = load_cycles(analyzer, paths)
    print(f"   - {hints.HINTS6_LABEL}: {len(hints6)} respondents")
    print(f"   - {hints.HINTS5_CYCLE4_LABEL}: {len(hints5)} respondents")

    # Step 2: Recoding
    print("\n2. Recoding codebook variables...")
    analyzer.recode_variables(hints.RECODE_RULES, data=hints6)
    for rule in hints.RECODE_RULES:
        print(f"   - {rule.source_column} -> {rule.target_column} (reference: {rule.reference_label})")

    # Step 3: Designs
    print("\n3. Building survey designs...")
    jackknife = analyzer.build_design('jackknife', hints.replicate_design())
    taylor = analyzer.build_design('taylor', hints.linearization_design())
    print(f"   - {jackknife}")
    print(f"   - {taylor}")

    # Step 4: Weighted crosstabs
    print("\n4. Weighted crosstabs...")
    for design in ['jackknife', 'taylor']:
        result = analyzer.weighted_crosstab(design, ['gender', 'seekcancerinfo'])
        print(f"\n   [{design}]")
        print(result.summary())

    # Step 5: Rao-Scott test
    print("\n5. Rao-Scott chi-square test...")
    test = analyzer.chi_square_test('jackknife', 'genhealth', 'chanceaskquestions', statistic='F')
    print(test.summary())

    # Step 6: Logistic regression
    print("\n6. Survey-weighted logistic regression...")
    fit = analyzer.fit_glm('jackknife', 'seekcancerinfo ~ gender + edu + Age')
    print(fit.summary())
    print("\n   Odds ratios:")
    print(fit.exponentiate().round(3).to_string())

    # Step 7: Merging cycles
    print("\n7. Merging HINTS 6 with HINTS 5 Cycle 4...")
    first_source = hints.merge_source(hints.HINTS6_LABEL)
    second_source = hints.merge_source(hints.HINTS5_CYCLE4_LABEL)
    analyzer.merge_surveys(hints6, hints5, first_source, second_source)
    analyzer.recode_variables(hints.RECODE_RULES)
    analyzer.build_design('merged', analyzer.dataset_merger.replicate_design(first_source, second_source))

    by_cycle = analyzer.weighted_crosstab('merged', ['survey', 'seekcancerinfo'])
    print(by_cycle.summary())

    pooled = analyzer.fit_glm('merged', 'seekcancerinfo ~ survey + gender + Age')
    print(pooled.exponentiate().round(3).to_string())

    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE")
    print("=" * 60)

    return analyzer


if __name__ == "__main__":
    survey_analyzer = main(sys.argv[1:])
    print(survey_analyzer.get_analysis_summary())
