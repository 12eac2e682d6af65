from django.urls import path, include


urlpatterns = [
    path('gradebook/', include('gradebook.urls')),
]
