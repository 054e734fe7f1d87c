# rentpulse — HTTP routes
