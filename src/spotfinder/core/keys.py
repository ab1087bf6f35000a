"""Shared record keys to avoid magic strings across discovery modules."""

from __future__ import annotations

# Candidate / location keys
K_ID = "id"
K_NAME = "name"
K_ADDRESS = "address"
K_PHONE = "phone"
K_WEBSITE = "website"
K_RATING = "rating"
K_PRICE = "price"
K_COORDINATES = "coordinates"
K_LAT = "lat"
K_LNG = "lng"
K_STATUS = "status"
K_SOURCE_URL = "source_url"
K_CREATED_AT = "created_at"

# Scraping result keys
K_SUCCESS = "success"
K_CANDIDATES = "candidates"
K_SOURCE = "source"
K_ERROR = "error"
K_STRATEGY = "strategy"

STATUS_PENDING = "pending"
