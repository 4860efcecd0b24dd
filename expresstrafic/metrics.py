from prometheus_client import Counter

# Reservation metrics
RESERVATIONS_CREATED = Counter("expresstrafic_reservations_created_total", "Reservations created (pending holds)")
RESERVATION_CONFLICTS = Counter("expresstrafic_reservation_conflicts_total", "Reservation attempts rejected because the seat is held")
RESERVATIONS_EXPIRED = Counter("expresstrafic_reservations_expired_total", "Pending holds moved to expired", ["source"])

# Email verification metrics
VERIFICATION_EMAILS_SENT = Counter("expresstrafic_verification_emails_sent_total", "Verification emails issued")
VERIFICATION_RESULTS = Counter("expresstrafic_verification_results_total", "Email verification outcomes", ["code"])

# Notification metrics
NOTIF_COUNTER_SENT = Counter("expresstrafic_notifications_sent_total", "Total notifications sent", ["channel", "provider"])
NOTIF_COUNTER_FAILED = Counter("expresstrafic_notifications_failed_total", "Total notification failures", ["channel", "provider"])

# Rate limiting
RATE_LIMIT_REJECTIONS = Counter("expresstrafic_rate_limit_rejections_total", "Requests rejected by a rate limiter", ["limiter"])
