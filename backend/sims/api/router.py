from fastapi import APIRouter

from sims.api.endpoints import admin, auth, faculty, notifications, student

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])

# Role portals; the route guard owns these prefixes
api_router.include_router(student.router, prefix="/student")
api_router.include_router(faculty.router, prefix="/faculty")
api_router.include_router(admin.router, prefix="/admin")

# Notification bell under every role prefix
for prefix in ("/student", "/faculty", "/admin"):
    api_router.include_router(notifications.router, prefix=f"{prefix}/notifications")
