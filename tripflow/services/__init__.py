"""
Business logic services for TripFlow.
Only the database-free engine is exported here; import SubscriptionService
and TripService from their modules.
"""
from tripflow.services.plan_service import PlanService, UsageStats, UserSubscription

__all__ = ['PlanService', 'UsageStats', 'UserSubscription']
