from django.urls import path
from .views import (
    CurrentJobView,
    JobHistoryView,
    StartJobView,
    JobProgressView,
    CompleteJobView,
    CancelJobView,
    RateJobView,
    EarningsView,
)

urlpatterns = [
    path("current/", CurrentJobView.as_view(), name="job-current"),
    path("history/", JobHistoryView.as_view(), name="job-history"),
    path("earnings/", EarningsView.as_view(), name="job-earnings"),
    path("<int:job_id>/start/", StartJobView.as_view(), name="job-start"),
    path("<int:job_id>/progress/", JobProgressView.as_view(), name="job-progress"),
    path("<int:job_id>/complete/", CompleteJobView.as_view(), name="job-complete"),
    path("<int:job_id>/cancel/", CancelJobView.as_view(), name="job-cancel"),
    path("<int:job_id>/rate/", RateJobView.as_view(), name="job-rate"),
]
