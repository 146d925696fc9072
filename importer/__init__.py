"""
Design
======

The importer loads zip archives which carry an RDF manifest describing
payload files and redirect locations.

General goals:

* Everything which has to outlive a run (artifacts, entity file lists and
  redirect registrations) is stored in the database and visible for reporting
* Calls to the external redirect service never happen during an import; they
  are queued and performed by Celery with retries, so a slow or failing
  service can't break an import

The import process works like this:

1. The archive is extracted into its own working directory. Profiles which
   use split manifests run the external splitter over each manifest first.
2. The manifest fragments are parsed and merged into one graph.
3. Every bibliographic resource must point at a file in the archive;
   a missing file stops the run. The file is stored as an unpublished
   Artifact, attached to the entities which reference the resource and a
   RedirectTask is queued for it.
4. Location resources (for profiles which import them) only queue a
   RedirectTask.
5. The working directory is removed.
6. The process_redirect_queue task drains due RedirectTasks on a schedule.
   A confirmed registration publishes the task's Artifact; failures are
   retried with exponential backoff until the retry budget is spent.
"""
