"""Rules/alerting engine: evaluates threshold rules against the latest measurements."""
