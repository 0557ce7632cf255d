"""notifyhub HTTP routers: auth (/auth/zalo), notifications, webhook (/webhook/zalo)."""
