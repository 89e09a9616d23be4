
from dotenv import load_dotenv

# Load .env before any module reads os.environ (API_KEY, ELASTICSEARCH_URL,
# the tuning overrides in config.load_settings).
load_dotenv()
