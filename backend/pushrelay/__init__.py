"""PushRelay - Expo push notification relay."""
