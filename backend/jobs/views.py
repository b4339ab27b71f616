from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.permissions import IsOperator, IsRequester
from common.responses import error_response
from jobs.models import AcceptedJob
from jobs.serializers import (
    AcceptedJobSerializer,
    CompleteJobSerializer,
    OperatorRatingSerializer,
    PenaltyRecordSerializer,
    ProgressSerializer,
    RatingSerializer,
)
from marketplace.serializers import CancelSerializer
from services.exceptions import MarketplaceError
from services.job_management import (
    cancel_job,
    complete_job,
    earnings_summary,
    get_current_job,
    rate_job,
    start_job,
    update_progress,
)


class CurrentJobView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def get(self, request):
        job = get_current_job(request.user)
        if not job:
            return Response({"has_active_job": False, "message": "No active job"})

        serializer = AcceptedJobSerializer(job, context={"request": request})
        return Response({"has_active_job": True, "job": serializer.data})


class JobHistoryView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def get(self, request):
        jobs = AcceptedJob.objects.filter(operator=request.user).select_related("request")
        status_filter = request.query_params.get("status")
        if status_filter:
            jobs = jobs.filter(status=status_filter)

        serializer = AcceptedJobSerializer(jobs, many=True, context={"request": request})
        return Response({"count": len(serializer.data), "jobs": serializer.data})


class StartJobView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def post(self, request, job_id):
        try:
            result = start_job(request.user, job_id)
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "success": True,
            "message": result.message,
            "job": AcceptedJobSerializer(result.job, context={"request": request}).data,
        })


class JobProgressView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def post(self, request, job_id):
        serializer = ProgressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = update_progress(request.user, job_id, serializer.validated_data["progress"])
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "success": True,
            "job_id": result.job.id,
            "progress": result.job.progress,
        })


class CompleteJobView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def post(self, request, job_id):
        serializer = CompleteJobSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = complete_job(request.user, job_id, serializer.validated_data.get("earnings"))
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "success": True,
            "message": result.message,
            "job": AcceptedJobSerializer(result.job, context={"request": request}).data,
            **result.extra,
        })


class CancelJobView(APIView):
    """Open to both sides of the job; only operator cancellations can be penalised."""

    permission_classes = [IsAuthenticated]

    def post(self, request, job_id):
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = cancel_job(request.user, job_id, serializer.validated_data["reason"])
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "success": True,
            "message": result.message,
            "job_id": result.job.id,
            "cancelled_at": result.job.cancelled_at,
            **result.extra,
        })


class RateJobView(APIView):
    permission_classes = [IsAuthenticated, IsRequester]

    def post(self, request, job_id):
        serializer = RatingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            rating = rate_job(
                request.user,
                job_id,
                serializer.validated_data["stars"],
                serializer.validated_data["review"],
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(OperatorRatingSerializer(rating).data, status=201)


class EarningsView(APIView):
    permission_classes = [IsAuthenticated, IsOperator]

    def get(self, request):
        penalties = request.user.penalties.all()[:20]
        return Response({
            "tiers": earnings_summary(request.user),
            "recent_penalties": PenaltyRecordSerializer(penalties, many=True).data,
        })
