FEEDSTR_VERSION = "0.1.0"
USER_AGENT = f"feedstr/{FEEDSTR_VERSION}"
