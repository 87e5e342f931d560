from django.urls import path

from .views import CreditCostView, GenerationAttemptViewSet

app_name = 'generation'

urlpatterns = [
    path('costs/', CreditCostView.as_view(), name='costs'),
    path('attempts/', GenerationAttemptViewSet.as_view({'get': 'list'}), name='attempts'),
    path('attempts/<uuid:pk>/', GenerationAttemptViewSet.as_view({'get': 'retrieve'}), name='attempt-detail'),
]
