# CleanMatch API routers
