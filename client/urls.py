from django.urls import path

from . import views

urlpatterns = [
    path('tasks-to-review/', views.tasks_to_review, name='tasks_to_review'),
    path('projects/<int:project_id>/tasks/<int:task_id>/review/', views.review_task, name='review_task'),
    path('projects/<int:project_id>/pause/', views.pause_project, name='pause_project'),
    path('projects/<int:project_id>/resume/', views.resume_project, name='resume_project'),
    path('projects/<int:project_id>/sync-status/', views.sync_project_status, name='sync_project_status'),
    path('proposals/<int:proposal_id>/accept/', views.accept_proposal, name='accept_proposal'),
    path('proposals/<int:proposal_id>/reject/', views.reject_proposal, name='reject_proposal'),

    # Gigs
    path('gigs/', views.gigs, name='client_gigs'),
    path('gigs/<int:gig_id>/applications/', views.gig_applications, name='gig_applications'),
    path('gig-applications/<int:application_id>/accept/', views.accept_gig_application, name='accept_gig_application'),
    path('gig-applications/<int:application_id>/reject/', views.reject_gig_application, name='reject_gig_application'),
    path('gig-requests/', views.send_gig_request, name='send_gig_request'),
]
