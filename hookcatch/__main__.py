from hookcatch.cli import main

main()
