from datetime import timedelta

# Длительность доступа по умолчанию (если у курса не задан срок)
DEFAULT_DURATION_DAYS = 30

# Коэффициенты единиц длительности (в днях)
DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365

# Токен шлюза
TOKEN_SAFETY_MARGIN = timedelta(seconds=30)
DEFAULT_TOKEN_TTL_SECONDS = 3600
MAX_TOKEN_TTL_SECONDS = 86400 * 365

# Уведомления
NOTIFICATION_BATCH_SIZE = 300
NOTIFICATION_LIST_LIMIT = 200
PURCHASE_NOTIFICATION_LINK = "/my-content"
ADMIN_NOTIFICATION_LINK = "/my-content"

# Поллинг на стороне клиента
POLL_INTERVAL_SECONDS = 3.0
POLL_TIMEOUT_SECONDS = 120.0
POLL_MAX_CONSECUTIVE_ERRORS = 5

# Фоновая сверка счетов
SWEEP_INTERVAL_SECONDS = 300
SWEEP_LOOKBACK = timedelta(hours=6)
INVOICE_EXPIRY_HOURS = 48

# Хост коротких ссылок QPay
QPAY_SHORT_URL_PREFIXES = ("https://s.qpay.mn/", "http://s.qpay.mn/")

# Верхняя граница суммы счета (колонка INTEGER)
MAX_INVOICE_AMOUNT = 2_147_483_647

# Описание счета по умолчанию
DEFAULT_INVOICE_DESCRIPTION = "Сургалтын төлбөр"
