from dynaconf import Dynaconf, Validator

settings = Dynaconf(
    settings_files=["settings.toml", ".secrets.toml"],
    environments=True,
    env_switcher="ENV_FOR_DYNACONF",
    envvar_prefix="SOCIALGRAPH",
    load_dotenv=True,
    validators=[
        Validator("DATABASE_URL", must_exist=True),
        Validator("FEED_CACHE_TTL", default=300, is_type_of=int),
        Validator("FEED_CACHE_MAX_ENTRIES", default=512, is_type_of=int),
        Validator("EXPLORE_LIMIT", default=60, is_type_of=int),
        Validator("SEARCH_SCAN_LIMIT", default=100, is_type_of=int),
    ],
)
