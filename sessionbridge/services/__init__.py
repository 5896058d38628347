"""Services: session registry, OTP bridge, scheduler and drivers."""
