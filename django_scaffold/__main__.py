from django_scaffold.pipeline import main

main()
