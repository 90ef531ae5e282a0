from django.urls import path

from . import views

urlpatterns = [
    # Task board
    path('task-board/', views.task_board, name='task_board'),
    path('task-board/<str:column>/', views.task_board_column, name='task_board_column'),
    path('tasks/move-to-today/', views.move_to_today, name='move_tasks_to_today'),
    path('projects/<int:project_id>/tasks/<int:task_id>/submit/', views.submit_task, name='submit_task'),
    path('projects/<int:project_id>/pause-request/', views.request_project_pause, name='request_project_pause'),

    # Proposals
    path('proposals/drafts/', views.proposal_drafts, name='proposal_drafts'),
    path('proposals/drafts/<int:draft_id>/', views.delete_proposal_draft, name='delete_proposal_draft'),
    path('proposals/send/', views.send_proposal, name='send_proposal'),

    # Gigs
    path('gigs/', views.open_gigs, name='open_gigs'),
    path('gigs/<int:gig_id>/apply/', views.apply_to_gig, name='apply_to_gig'),
    path('gig-requests/', views.gig_requests, name='gig_requests'),
    path('gig-requests/<int:request_id>/accept/', views.accept_gig_request, name='accept_gig_request'),
    path('gig-requests/<int:request_id>/reject/', views.reject_gig_request, name='reject_gig_request'),
]
