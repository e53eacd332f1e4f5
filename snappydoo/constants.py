DEFAULT_BUILDER_URL = "https://api.slack.com/docs/messages/builder"
READY_INDICATOR_SELECTOR = "#message_loading_indicator"
MESSAGE_CONTAINER_SELECTOR = "#msgs_div"
READY_TIMEOUT_MS = 30000

DEFAULT_VIEWPORT = {"width": 1000, "height": 600}
DEFAULT_DEVICE_SCALE_FACTOR = 2

DEFAULT_MAX_CONCURRENT = 2

MANIFEST_FILENAME = "package.json"
MANIFEST_KEY = "snappydoo"

DEFAULT_BOT_LOGIN = "snappydoo[bot]"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REDO_COMMAND = "snappydoo redo all"
REDO_BRANCH_PREFIX = "snappydoo/redo-all"
