"""Protocol constants shared by the authorization managers."""

# Query parameter names
CLIENT_ID_KEY = "client_id"
REDIRECT_URI_KEY = "redirect_uri"
LOCALE_KEY = "locale"
DISABLE_SIGNUP_KEY = "disable_signup"
RESPONSE_TYPE_KEY = "response_type"
STATE_KEY = "state"
SCOPE_KEY = "scope"
INCLUDE_GRANTED_SCOPES_KEY = "include_granted_scopes"
CODE_CHALLENGE_KEY = "code_challenge"
CODE_CHALLENGE_METHOD_KEY = "code_challenge_method"
TOKEN_ACCESS_TYPE_KEY = "token_access_type"
EXTRA_QUERY_PARAMS_KEY = "extra_query_params"
ERROR_KEY = "error"
ERROR_DESCRIPTION_KEY = "error_description"
ACCESS_TOKEN_KEY = "access_token"
UID_KEY = "uid"
CODE_KEY = "code"
OAUTH_TOKEN_KEY = "oauth_token"
OAUTH_SECRET_KEY = "oauth_token_secret"

# Delegated (companion app) request parameters
APP_KEY_PARAM = "k"
SIGNATURE_PARAM = "s"

# URL shapes
APP_SCHEME_PREFIX = "db"
WEB_REDIRECT_HOST = "2"
DAUTH_REDIRECT_HOST = "1"
TOKEN_PATH = "/token"
CANCEL_PATH = "/cancel"
CONNECT_PATH = "/connect"
AUTHORIZE_PATH = "/oauth2/authorize"
TOKEN_ENDPOINT_PATH = "/oauth2/token"
DAUTH_SCHEMES = ("dbapi-2", "dbapi-8-emm")

DEFAULT_HOST = "www.dropbox.com"
DEFAULT_API_HOST = "api.dropboxapi.com"
DEFAULT_LOCALE = "en"

# Preference store keys
CSRF_KEY = "dropbox.csrf"
LINK_NONCE_KEY = "dropbox.sync.nonce"
ACCESSIBILITY_MIGRATION_KEY = "KeychainAccessibilityMigration"

# Secure storage service suffix
KEYCHAIN_SERVICE_SUFFIX = "dropbox.authv2"

ERROR_DIALOG_TITLE = "dbxauth Error"
