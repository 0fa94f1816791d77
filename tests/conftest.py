import numpy as np
import pandas as pd
import pytest
from scipy.special import expit

from attrition_common.encoding import encode
from attrition_common.filters import filter_valuable_employees


def make_hr_table(n_rows: int = 1200, seed: int = 7) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    satisfaction = rng.uniform(0.05, 1.0, n_rows).round(2)
    evaluation = rng.uniform(0.4, 1.0, n_rows).round(2)
    projects = rng.integers(2, 8, n_rows)
    hours = rng.normal(200, 45, n_rows).clip(90, 310).round()
    tenure = rng.integers(2, 9, n_rows)
    accident = (rng.random(n_rows) < 0.15).astype(int)
    promotion = (rng.random(n_rows) < 0.08).astype(int)
    department = rng.choice(["sales", "technical", "support", "IT", "hr"], n_rows)
    salary = rng.choice(["low", "medium", "high"], n_rows, p=[0.5, 0.4, 0.1])

    linear = (
        1.0
        - 4.5 * satisfaction
        + 0.25 * (tenure - 3)
        - 1.2 * accident
        + 0.6 * (salary == "low")
        + 0.004 * (hours - 200)
    )
    left = (rng.random(n_rows) < expit(linear)).astype(int)

    return pd.DataFrame(
        {
            "satisfaction_level": satisfaction,
            "last_evaluation": evaluation,
            "number_project": projects,
            "average_monthly_hours": hours,
            "time_spend_company": tenure,
            "work_accident": accident,
            "left": left,
            "promotion_last_5years": promotion,
            "department": department,
            "salary": salary,
        }
    )


@pytest.fixture(scope="session")
def hr_table() -> pd.DataFrame:
    return make_hr_table()


@pytest.fixture(scope="session")
def modeling_set(hr_table):
    design_matrix, _ = encode(hr_table)
    valuable = filter_valuable_employees(design_matrix)
    return valuable.drop(columns=["left"]), valuable["left"]
