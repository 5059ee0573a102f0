"""
Services package for AyurClinic API
Contains business logic shared by the routers
"""
