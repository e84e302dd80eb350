"""Admin back office: coupons, events, reviews and review import."""
