"""Trading academy platform API.

Accounts, demo trading tasks and community rooms, with every request
authenticated by a signed session credential and every gated operation
decided by a single authorization policy.
"""
