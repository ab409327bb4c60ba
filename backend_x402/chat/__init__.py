"""
Chat package: intent routing, persona, response composition and the
generative completion tier.
"""
