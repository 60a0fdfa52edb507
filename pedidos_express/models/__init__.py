from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.models.order import Order
from pedidos_express.models.message_usage import MessageUsage
from pedidos_express.models.whatsapp_message_log import WhatsAppMessageLog
