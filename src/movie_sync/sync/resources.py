"""Resource class names shared by the backoff tracker, guards and scheduler."""

SESSION = "session"
PROFILE = "profile"
WATCHLIST = "watchlist"
LIKES = "likes"
STATS = "stats"
RECOMMENDATIONS = "recommendations"
COMMENTS = "comments"
NOTIFICATIONS = "notifications"
