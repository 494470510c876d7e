import os

from .constants import DB_FILENAME


def get_data_dir():
    # PHOTSPOT_DATA_DIR wins; otherwise keep the catalog in the user's home.
    data_dir = os.environ.get("PHOTSPOT_DATA_DIR", "").strip() or os.path.join(
        os.path.expanduser("~"), ".photspot"
    )
    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def get_db_path():
    return os.path.join(get_data_dir(), DB_FILENAME)
