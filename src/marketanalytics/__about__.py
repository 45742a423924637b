# __about__.py
__title__ = "MarketAnalytics"
__version__ = "0.1.0"
