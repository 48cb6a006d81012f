"""Configuration settings for facility data cleaning and indicator derivation."""

# Data paths
DATA_DIR = "../data/raw"
OUTPUT_DIR = "../data/processed"
EXPORT_PATTERN = "*.csv"

# Keys
GROUP_KEY = "hf_uid"
PERIOD_COL = "periodid"
TIME_COLS = ["year", "month"]
ADMIN_LEVELS = {
    "adm1": ["adm1"],
    "adm2": ["adm1", "adm2"],
    "hf": ["adm1", "adm2", "hf", "hf_uid"],
}

# Export column names -> short field names
RENAME_MAP = {
    "orgunitlevel2": "adm1",
    "orgunitlevel3": "adm2",
    "organisationunitname": "hf",
    "organisationunitid": "hf_uid",
    "OPD attendance <5y": "allout_u5",
    "OPD attendance >=5y": "allout_ov5",
    "Suspected malaria <5y": "susp_u5",
    "Suspected malaria >=5y": "susp_ov5",
    "Suspected malaria pregnant women": "susp_preg",
    "Malaria tested <5y": "test_u5",
    "Malaria tested >=5y": "test_ov5",
    "Malaria tested pregnant women": "test_preg",
    "Confirmed malaria <5y": "conf_u5",
    "Confirmed malaria >=5y": "conf_ov5",
    "Confirmed malaria pregnant women": "conf_preg",
    "Malaria treated with ACT <5y": "maltreat_u5",
    "Malaria treated with ACT >=5y": "maltreat_ov5",
    "Malaria treated with ACT pregnant women": "maltreat_preg",
    "Malaria admissions <5y": "maladm_u5",
    "Malaria admissions >=5y": "maladm_ov5",
    "Malaria admissions pregnant women": "maladm_preg",
    "Malaria deaths <5y": "maldth_u5",
    "Malaria deaths >=5y": "maldth_ov5",
    "Malaria deaths pregnant women": "maldth_preg",
}

# Declared numeric fields (base fields as they come out of renaming)
NUMERIC_FIELDS = [
    "allout_u5", "allout_ov5",
    "susp_u5", "susp_ov5", "susp_preg",
    "test_u5", "test_ov5", "test_preg",
    "conf_u5", "conf_ov5", "conf_preg",
    "maltreat_u5", "maltreat_ov5", "maltreat_preg",
    "maladm_u5", "maladm_ov5", "maladm_preg",
    "maldth_u5", "maldth_ov5", "maldth_preg",
]

# Derived totals: name -> source fields summed row-wise
VARIABLE_GROUPS = {
    "allout": ["allout_u5", "allout_ov5"],
    "susp": ["susp_u5", "susp_ov5", "susp_preg"],
    "test": ["test_u5", "test_ov5", "test_preg"],
    "conf": ["conf_u5", "conf_ov5", "conf_preg"],
    "maltreat": ["maltreat_u5", "maltreat_ov5", "maltreat_preg"],
    "maladm": ["maladm_u5", "maladm_ov5", "maladm_preg"],
    "maldth": ["maldth_u5", "maldth_ov5", "maldth_preg"],
}

# Derived ratios: name -> (numerator, denominator)
RATIO_INDICATORS = {
    "test_positivity": ("conf", "test"),
    "testing_rate": ("test", "susp"),
    "treatment_rate": ("maltreat", "conf"),
    "case_fatality": ("maldth", "maladm"),
}

# Outlier detection parameters
IQR_MULTIPLIER = 1.5
OUTLIER_RULES = ["median", "flag"]
OUTLIER_FIELDS = NUMERIC_FIELDS
DEFAULT_OUTLIER_POLICY = {"group_col": GROUP_KEY, "rule": "median"}

# Per-field overrides of DEFAULT_OUTLIER_POLICY
OUTLIER_POLICIES = {
    # Deaths are rare events; keep the raw counts and only flag them
    "maldth_u5": {"group_col": GROUP_KEY, "rule": "flag"},
    "maldth_ov5": {"group_col": GROUP_KEY, "rule": "flag"},
    "maldth_preg": {"group_col": GROUP_KEY, "rule": "flag"},
}
